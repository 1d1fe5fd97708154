"""Domínio: modelos, estados e portas do motor de conversas."""
