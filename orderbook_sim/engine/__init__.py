"""Analytics and order impact simulation over canonical books."""
