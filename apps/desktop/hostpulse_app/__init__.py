"""HostPulse desktop HUD application."""
