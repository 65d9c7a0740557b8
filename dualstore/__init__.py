# ==============================================
# Dual-Store Food Ordering Core
# ==============================================
#
# Package Structure:
#
# dualstore/
# ├── storage/          # MySQL pool, MongoDB handle, SQL -> Mongo migration
# ├── config.py         # Configuration management
# ├── errors.py         # Error taxonomy + status mapping
# ├── mode.py           # Active mode resolution + health composite
# └── cli.py            # Command line entry point
#
# ==============================================

__version__ = "0.1.0"
