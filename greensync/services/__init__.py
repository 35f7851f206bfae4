"""
Service Organization
====================

**application/**
  Long-lived services owned by the ServiceContainer (sync settings).

**sync/**
  The synchronization engine: merge policy, reference table syncer,
  sensor history syncer, upload batcher, the coordinator that serialises
  them, and the telemetry recorder that shares its queue.
"""
