# app/tables/constants.py
"""Constants shared by the table query engine."""

import re

DEFAULT_ROW_LIMIT = 100

# Result column that carries a natural row identifier
ID_FIELD = "Id"
SYNTHETIC_KEY_FIELD = "_rowKey"
SYNTHETIC_KEY_PREFIX = "row-"

# Placeholder grammar
RECORD_SIGIL = "$record"
RECORD_TOKEN_PATTERN = re.compile(r"\$record\.([A-Za-z0-9_]+)")
CURRENT_USER_PLACEHOLDER = "$CurrentUserId"
SUBJECT_RECORD_PLACEHOLDER = "$recordId"

# Column label transfer format: "Name=>Account Name,Industry=>Industry"
LABEL_PAIR_SEPARATOR = ","
LABEL_SEPARATOR = "=>"

CONFIG_SCHEMA_VERSION = 2
