import logging

from paperfold.logging_config import setup_logging


def test_setup_logging_does_not_stack_handlers(tmp_path):
    log_file = tmp_path / "paperfold.log"
    setup_logging(level=logging.DEBUG)
    setup_logging(level=logging.DEBUG, log_file=str(log_file))

    logger = logging.getLogger("paperfold")
    try:
        assert len(logger.handlers) == 2
        assert logger.level == logging.DEBUG
        logging.getLogger("paperfold.model").debug("hello")
        for handler in logger.handlers:
            handler.flush()
        assert "hello" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
