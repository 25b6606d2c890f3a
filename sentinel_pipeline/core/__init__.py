"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants, collection names, destination kinds
- exceptions: Custom exception hierarchy
- telemetry: Operator-visible structured event stream
- ingress: Request payload parsing for the HTTP entry point
- service: Composition root wiring adapters into the pipeline
"""
