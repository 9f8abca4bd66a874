"""
Business logic services.

Each service handles one stage of the price-list upload pipeline;
UploadOrchestrator ties them together.
"""

from services.column_mapper_service import ColumnMapperService, get_column_mapper_service
from services.validation_service import ValidationService, get_validation_service
from services.duplicate_service import DuplicateService, get_duplicate_service
from services.price_rules_service import PriceRulesService, get_price_rules_service
from services.learning_store import (
    InMemoryLearningStore,
    JsonFileLearningStore,
    SupabaseLearningStore,
)
from services.checkpoint_store import (
    InMemoryCheckpointStore,
    FileCheckpointStore,
    SupabaseCheckpointStore,
)
from services.upload_events import UploadEventBus
from services.price_list_persistence import (
    InMemorySupplierDirectory,
    InMemoryPriceListStore,
    InMemoryStatusStore,
)
from services.supabase_gateways import (
    SupabaseSupplierDirectory,
    SupabaseExistingItems,
    SupabasePriceListPersistence,
    SupabaseStatusStore,
)
from services.upload_orchestrator import UploadOrchestrator, get_upload_orchestrator

__all__ = [
    # Pipeline stages
    "ColumnMapperService",
    "get_column_mapper_service",
    "ValidationService",
    "get_validation_service",
    "DuplicateService",
    "get_duplicate_service",
    "PriceRulesService",
    "get_price_rules_service",

    # Learning + checkpoints
    "InMemoryLearningStore",
    "JsonFileLearningStore",
    "SupabaseLearningStore",
    "InMemoryCheckpointStore",
    "FileCheckpointStore",
    "SupabaseCheckpointStore",

    # Events
    "UploadEventBus",

    # Collaborators
    "InMemorySupplierDirectory",
    "InMemoryPriceListStore",
    "InMemoryStatusStore",
    "SupabaseSupplierDirectory",
    "SupabaseExistingItems",
    "SupabasePriceListPersistence",
    "SupabaseStatusStore",

    # Orchestration
    "UploadOrchestrator",
    "get_upload_orchestrator",
]
