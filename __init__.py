"""
Cloudwave

A music player for libraries kept in cloud storage (Google Drive, any
S3-compatible bucket, or a plain folder). Tracks are streamed on demand into
a single playback slot, and a live spectrum of whatever is playing is drawn
in the terminal.

Repository Structure:
- player/: transport controller, sinks, spectrum analyzer and CLI
- storage/: catalog and byte-source backends
- shared/: models, constants, errors and configuration
- tests/: pytest suite
"""
