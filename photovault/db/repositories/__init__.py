from .vault_repo import VaultRepo
from .album_repo import AlbumRepo
from .image_repo import ImageRepo
from .settings_repo import SettingsRepo
