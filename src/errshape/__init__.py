"""errshape — нормализация и fingerprinting сообщений об ошибках."""

__version__ = "0.1.0"
