import sys

from cancelflow.logger import logging


def error_message_detail(error, error_detail):
    exc_tb = None
    if error_detail is not None:
        _, _, exc_tb = error_detail.exc_info()
    if exc_tb is None:
        exc_tb = getattr(error, "__traceback__", None)

    if exc_tb is not None:
        while exc_tb.tb_next is not None:
            exc_tb = exc_tb.tb_next
        file_name = exc_tb.tb_frame.f_code.co_filename
        line_number = exc_tb.tb_lineno
    else:
        # no traceback: report where CustomException was raised
        frame = sys._getframe(2)
        file_name = frame.f_code.co_filename
        line_number = frame.f_lineno

    return "Error occured in python script name [{0}] line number [{1}] error message [{2}]".format(
        file_name, line_number, str(error)
    )


class CustomException(Exception):
    def __init__(self, error_message, error_detail=None):
        super().__init__(error_message)
        self.error_message = error_message_detail(error_message, error_detail=error_detail)
        logging.error(self.error_message)

    def __str__(self):
        return self.error_message


__all__ = ["CustomException", "error_message_detail"]
