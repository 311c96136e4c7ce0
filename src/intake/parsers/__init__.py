"""Parsers for external export formats (Trello JSON, iCalendar)."""
