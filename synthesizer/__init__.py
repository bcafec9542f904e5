"""
Variant synthesizer: many distinct derivative images from one product photo.

Modules:
- core: single-variant synthesis and batch orchestration
- render: canvas sizing, geometric/colour jitter, noise, overlay, encoding
- modes: standard vs cloaking parameter ranges
- store: persistent variant store (JSON index + content-addressed blobs)
- session: newest-first in-memory list, history recovery, purge
- export: bulk export, listing CSV and metadata JSON
- tagging / generator: LLM tagging and Replicate background adapters
- validation: simulated marketplace validation and shipping clusters
"""
