"""Constantes partagées pour éviter les valeurs magiques dans le code.

Codes HTTP utilisés par la couche API et bornes de validation des entrées.
"""

# Codes de statut HTTP
HTTP_STATUS_OK = 200
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_PAYLOAD_TOO_LARGE = 413
HTTP_STATUS_UNPROCESSABLE_ENTITY = 422
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500
HTTP_STATUS_SERVICE_UNAVAILABLE = 503
HTTP_STATUS_SERVER_ERROR_MIN = 500

# Bornes de validation
MIN_TOP_K = 1
MAX_TOP_K = 10
MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 1000

# Encodage tiktoken par défaut quand le modèle n'est pas connu
DEFAULT_MODEL_ENCODING = "cl100k_base"
