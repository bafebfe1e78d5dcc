"""Pure domain layer: values, canonical encoding, signing and the approval workflow."""
