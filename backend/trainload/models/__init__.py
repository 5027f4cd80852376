from trainload.models.workout import Workout
from trainload.models.device import UserDevice
from trainload.models.ingestion_log import IngestionLog

__all__ = [
    "Workout",
    "UserDevice",
    "IngestionLog",
]
