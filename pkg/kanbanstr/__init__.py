# kanbanstr: kanban boards and cards persisted as replaceable event-log records
#
# Components:
#   schema.py     - Data model (Board, Column, Card, CardLink, RawRecord, RecordFilter)
#   errors.py     - Error taxonomy (NotFound, PermissionDenied, DecodeError, ...)
#   codec.py      - Tag codec: decoder tables, legacy detection, encoders
#   dedup.py      - Last-write-wins conflict resolution
#   ranking.py    - Fractional ordering for drag-and-drop
#   client.py     - Event client boundary (in-memory and HTTP gateway)
#   repository.py - Board/card reads and writes
#   tracking.py   - Cross-board tracking stubs
#   migration.py  - Legacy JSON-content → tag format migration
#   config.py     - YAML configuration
#   cli.py        - Command line
