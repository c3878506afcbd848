"""Domain layer: mapping model, ports and lifecycle controllers."""
