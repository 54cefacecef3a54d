"""Calendar connectors for Google Calendar and Microsoft Outlook."""
