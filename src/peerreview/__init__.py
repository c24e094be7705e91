"""Dynamic reviewer and metareviewer assignment for peer-reviewed coursework."""
