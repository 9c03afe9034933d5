from __future__ import annotations

from flat_cli.shared.logging import get_logger


def test_logger_info_routes_to_stderr(capfd) -> None:
    logger = get_logger()

    logger.info("structured log to stderr")

    captured = capfd.readouterr()
    assert "structured log to stderr" in captured.err
    assert "structured log to stderr" not in captured.out


def test_debug_only_when_verbose(capfd) -> None:
    get_logger().debug("quiet detail")
    get_logger(verbose=True).debug("loud detail")

    captured = capfd.readouterr()
    assert "quiet detail" not in captured.err
    assert "loud detail" in captured.err


def test_session_logger_prefixes_label(capfd) -> None:
    logger = get_logger().for_session("people.csv")

    logger.warning("view rebuilt with [brackets]")

    captured = capfd.readouterr()
    assert "[people.csv] view rebuilt with [brackets]" in captured.err
