import logging

from coderoom.logging_config import configure_logging


def test_configure_logging_sets_package_level():
    configure_logging("debug")
    assert logging.getLogger("coderoom").level == logging.DEBUG

    configure_logging("nonsense")
    assert logging.getLogger("coderoom").level == logging.WARNING

    configure_logging(logging.INFO)
    assert logging.getLogger("coderoom").level == logging.INFO
    logging.getLogger("coderoom").setLevel(logging.NOTSET)
