"""Casos de uso e controladores do motor de conversas."""
