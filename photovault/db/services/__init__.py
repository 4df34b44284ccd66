from .vault_registry import VaultRegistry
from .tree_reconciler import TreeReconciler, SyncReport
from .folder_operations import FolderOperations
from .image_operations import ImageOperations, BatchItemResult, TrashInfo
from .thumbnail_service import ThumbnailService
from .library_service import LibraryService
