from .mixins import Base
from .vault import Vault
from .album import Album
from .image import Image, ImageStatus
from .setting import Setting
