"""
AI Video Studio worker.

Job orchestration for provider-backed video generation:
  Submitter → Ledger → Status Poller, plus batch runs and multi-step pipelines.
"""

__version__ = "0.4.0"
