from scenetracker.store.event_log import EventLog
from scenetracker.store.gating import apply_status_gating
from scenetracker.store.projection import ProjectionEngine
from scenetracker.store.store import EventStore

__all__ = ["EventLog", "EventStore", "ProjectionEngine", "apply_status_gating"]
