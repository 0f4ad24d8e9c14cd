# fieldcrypt_core/constants.py

# encryption modes declared on fields
PLAINTEXT = None
SEPARATED = "separated"
AGGREGATED = "aggregated"
MODES = (SEPARATED, AGGREGATED)

# aggregated mode
AGGREGATED_ALGORITHM = "aes-256-cbc"
AGGREGATED_KEY_LENGTH = 32
IV_LENGTH = 16
MAC_LENGTH = 32

# separated mode
SEPARATED_CIPHERS = ("rc4", "chacha20")
DEFAULT_SEPARATED_CIPHER = "rc4"
CHACHA20_NONCE_LENGTH = 16

# separated ciphertext storage strategies
STORAGE_SIDE_MAP = "side_map"
STORAGE_INLINE = "inline"
SEPARATED_STORAGES = (STORAGE_SIDE_MAP, STORAGE_INLINE)

# HKDF info labels
HKDF_INFO_MAC = b"fieldcrypt-aggregated-mac-v1"
HKDF_INFO_STREAM = b"fieldcrypt-separated-chacha20-v1"

# reserved record fields
ID_FIELD = "_id"
VERSION_FIELD = "__v"
AGGREGATED_CIPHER_FIELD = "aggregated_cipher"
SEPARATED_CIPHER_MAP_FIELD = "separated_cipher_map"
SEPARATED_INLINE_FIELD = "separated_inline_fields"
