"""Pure domain core: fiscal rules, identifier layouts, request types."""
