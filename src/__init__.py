"""boardintake - import Trello board exports and calendar files into a task model."""

__version__ = "0.1.0"
