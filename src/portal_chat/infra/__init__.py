"""Adaptadores de infraestrutura: stores, feed e cliente HTTP."""
