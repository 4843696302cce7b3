# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Trustbridge - trust-graph and federated routing engine.

Lets a user authenticate at their home identity provider while reaching a
resource registered at another provider of the same trust network.

Architecture:
  Trust network (immutable snapshot, reloaded wholesale)
    → Topology engine (hub-and-spoke / mesh path computation)
    → Discovery cache (user identifier → home provider)
    → Federation router (authorization redirect, code exchange,
      token validation, provenance re-issue, backchannel polling)

CLI entry point: ``trustbridge``
"""

__version__ = "0.1.0"
