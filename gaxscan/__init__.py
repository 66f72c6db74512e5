# gaxscan — GAX Song Recovery Engine
# Pure-Python brute-force discovery of GAX song headers in GBA ROM images.
#
# Architecture (bottom → top):
#   rom            — Immutable ROM image (mmap I/O) + pointer arithmetic
#   pointer_index  — Reverse map: target address → source offsets
#   attempt        — Per-trial AttemptContext + Accepted/Rejected outcomes
#   versions       — Version marker parsing, layouts, orphan chain tables
#   decoder        — GAX song header decoder (legacy + current layouts)
#   filters        — Acceptance predicate, name parsing, dedup/rename
#   scanner        — Version probe + structure scan over pointer targets
#   orphans        — Backward pointer-chain search for unreferenced songs
#   export         — WAV sample export, JSON report, decode logs
#   manager        — Orchestrator (load, scan, rename, export)
