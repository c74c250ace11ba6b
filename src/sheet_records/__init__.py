"""sheet-records — Turn spreadsheet ranges into ordered records."""

import logging

__version__ = "0.2.0"

PLACEHOLDER_HEADER = "<Column {index}>"

logging.getLogger(__name__).addHandler(logging.NullHandler())
