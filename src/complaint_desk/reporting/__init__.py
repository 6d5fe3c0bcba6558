"""
Report feeds.

- export.py: column-labelled flat rows for spreadsheet/report generators, CSV writer
- share.py: text block for clipboard/chat sharing
"""
