"""Pure helpers used by :mod:`herocycle.service`."""
