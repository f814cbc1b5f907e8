"""
Live streaming domain logic.

Includes:
- stream: FFmpeg relay supervision (command builder, readiness, supervisor, audit log).
"""
