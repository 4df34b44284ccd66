from .errors import VaultError, NotFound, Conflict, NotEmpty, InvalidInput, IOFailure
