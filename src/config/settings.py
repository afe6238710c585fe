from decouple import config

# ───────────────────────────────────────────────
# Supabase (PostgREST + Edge Functions)
# ───────────────────────────────────────────────
SUPABASE_URL       = config("SUPABASE_URL", default="http://localhost:54321")
SUPABASE_KEY       = config("SUPABASE_KEY", default="")
SUPABASE_TIMEOUT   = config("SUPABASE_TIMEOUT", default=10, cast=int)
SUPABASE_MAX_TRIES = config("SUPABASE_MAX_TRIES", default=3, cast=int)

# ───────────────────────────────────────────────
# Clínica
# ───────────────────────────────────────────────
CLINIC_TIMEZONE = config("CLINIC_TIMEZONE", default="America/Sao_Paulo")
FEE_PROVIDER    = config("FEE_PROVIDER", default="infinitypay")

# ───────────────────────────────────────────────
# Agenda / recorrência
# ───────────────────────────────────────────────
GCAL_SYNC_BATCH_SIZE     = config("GCAL_SYNC_BATCH_SIZE", default=3, cast=int)
OCCURRENCE_COUNT_MIN     = config("OCCURRENCE_COUNT_MIN", default=1, cast=int)
OCCURRENCE_COUNT_MAX     = config("OCCURRENCE_COUNT_MAX", default=60, cast=int)
OCCURRENCE_COUNT_DEFAULT = config("OCCURRENCE_COUNT_DEFAULT", default=10, cast=int)
DEFAULT_DURATION_MINUTES = config("DEFAULT_DURATION_MINUTES", default=60, cast=int)

# ───────────────────────────────────────────────
# Logging
# ───────────────────────────────────────────────
LOG_LEVEL = config("LOG_LEVEL", default="INFO")
JSON_LOGS = config("JSON_LOGS", default=False, cast=bool)
