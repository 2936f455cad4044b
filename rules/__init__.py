"""Column transition rule engine: validations, actions and their scheduling."""
