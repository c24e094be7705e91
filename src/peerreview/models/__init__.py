"""Assignment and review-mapping data models."""
