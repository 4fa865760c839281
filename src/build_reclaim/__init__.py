"""Reclaim stale build outputs held open by lingering processes."""
