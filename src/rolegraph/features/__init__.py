"""Feature packages for rolegraph."""
