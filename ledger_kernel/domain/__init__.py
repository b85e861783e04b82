"""Pure domain layer: clock, money arithmetic and status lifecycles."""
