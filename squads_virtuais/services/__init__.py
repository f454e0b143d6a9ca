"""Business logic layer. Blueprints call these modules; they own all DB work."""
