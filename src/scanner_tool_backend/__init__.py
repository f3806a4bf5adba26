"""
Scanner Tool Backend - scanner orchestration service

This package models a scanner-orchestration backend. It tracks a set of
simulated scanners, accepts scan jobs against them and runs each job through
an asynchronous, cancellable lifecycle while keeping scanner availability and
job status consistent under concurrent start/cancel/discover calls.

Key Components:
    - scanner_registry: Lock-guarded scanner inventory
    - job_store: Lock-guarded scan job records and state transitions
    - lifecycle: Background engine that advances a started job to a terminal state
    - scanner_service: Façade composing the above, plus discovery and host helpers
    - discovery: Configuration-driven, per-platform scanner enumeration
    - scan_generator: Pillow-based scan file synthesis
    - output: Output directory resolution and host file launching
    - configuration: Config loading and merging logic
    - main: FastAPI application exposing the service over HTTP

Usage:
    Run the API server with:
        uvicorn scanner_tool_backend.main:app --reload --host 0.0.0.0 --port 8000
"""
