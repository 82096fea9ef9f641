"""Namespace set aside for secure transport; it holds no modules yet."""