"""Symbols, separators and names used on the wire."""

# Frame type symbols
SYMBOL_ARRAY = b"*"
SYMBOL_BULK_STRING = b"$"
SYMBOL_SIMPLE_STRING = b"+"
SYMBOL_ERROR = b"-"

# Line separator
CRLF = b"\r\n"

# Command names
COMMAND_CREATE = "CREATE"
COMMAND_APPEND = "APPEND"
COMMAND_READ = "READ"
COMMAND_TRIM = "TRIM"
COMMAND_DELETE = "DELETE"

# Option names
OPTION_ID = "ID"
OPTION_MIN_ID = "MIN_ID"
OPTION_COUNT = "COUNT"
OPTION_BLOCK = "BLOCK"

# Replies
REPLY_OK = b"+OK\r\n"
REPLY_OK_STRING = "OK"