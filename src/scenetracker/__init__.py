"""SceneTracker: event-sourced scene state for branching roleplay chats."""

__version__ = "0.1.0"
