"""
Database Schema Reference
=========================

This file provides a quick reference for all database tables and columns.
For actual SQLAlchemy models, see: autotranslate/db/models.py

"""

# ============================================================================
# TRANSLATIONS - One row per (hash, language)
# ============================================================================
#
# | Column          | Type              | Constraints                        |
# |-----------------|-------------------|------------------------------------|
# | id              | INTEGER           | PRIMARY KEY, AUTOINCREMENT         |
# | hash            | VARCHAR(10)       | NOT NULL, INDEX                    |
# | lang            | VARCHAR(20)       | NOT NULL, INDEX ("other" = source) |
# | translated_text | TEXT              | NOT NULL                           |
# | source_digest   | VARCHAR(64)       | UNIQUE, NULLABLE (source rows only)|
# | scope_level     | INTEGER           | NOT NULL (ScopeLevel)              |
# | human           | BOOLEAN           | NOT NULL, DEFAULT FALSE            |
# | created_at      | TIMESTAMP(TZ)     | NOT NULL                           |
# | modified_at     | TIMESTAMP(TZ)     | NOT NULL                           |
# | reviewed_at     | TIMESTAMP(TZ)     | NULLABLE (NULL = never reviewed)   |
#
# Constraints:
#   - UNIQUE(hash, lang)
#   - exactly one "other" row per hash; every variant shares its scope_level
#
# A non-source row needs review when reviewed_at is NULL or older than
# max(modified_at, modified_at of the "other" row).


# ============================================================================
# SCOPE_MAPPINGS - Scopes (courses) in which a hash appears
# ============================================================================
#
# | Column      | Type              | Constraints                            |
# |-------------|-------------------|----------------------------------------|
# | hash        | VARCHAR(10)       | PRIMARY KEY (hash, scope_id)           |
# | scope_id    | INTEGER           | PRIMARY KEY (hash, scope_id), INDEX    |
# | created_at  | TIMESTAMP(TZ)     | NOT NULL                               |


# ============================================================================
# TAGGING_CURSORS - Batch tagging progress per content type
# ============================================================================
#
# | Column       | Type             | Constraints                            |
# |--------------|------------------|----------------------------------------|
# | content_type | VARCHAR(100)     | PRIMARY KEY                            |
# | table_name   | VARCHAR(100)     | NOT NULL                               |
# | last_id      | INTEGER          | NOT NULL, DEFAULT 0 (0 = start over)   |
# | updated_at   | TIMESTAMP(TZ)    | NOT NULL                               |


# ============================================================================
# SCOPE LEVELS
# ============================================================================
#
# | Level    | Value |
# |----------|-------|
# | SYSTEM   | 10    |
# | USER     | 30    |
# | CATEGORY | 40    |
# | COURSE   | 50    |
# | MODULE   | 70    |
# | BLOCK    | 80    |
