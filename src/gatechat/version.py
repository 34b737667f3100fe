"""Client version tracking.

VERSION is reported to the gateway during OAuth client registration and
by ``gatechat --version``. Bump it when client behavior changes, NOT for
dependency updates or test-only changes.

Bump rules:
- Patch (0.1.x): bug fixes, config tweaks
- Minor (0.x.0): new commands, prompt changes, new gateway features
- Major (x.0.0): architecture changes (new agent SDK, new auth flow)
"""

VERSION = "0.1.0"
