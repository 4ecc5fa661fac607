"""packet_server — FastAPI REST API for the packet generation pipeline.

Exposes intake visibility/validation/submission, the generation enqueue
API, job status, and admin queue health and archival endpoints.
"""
