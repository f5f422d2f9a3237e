"""pmassist - task reconciliation and calendar availability assistant."""

__version__ = "0.1.0"
