"""TrueBlazer venture lifecycle service."""
