"""Business logic services for the inproto relay.

Submodules are imported directly (``inproto.services.relay`` and so on); the
repositories depend on the envelope types defined here, so this package does
not re-export anything eagerly.
"""
