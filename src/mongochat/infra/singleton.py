import functools


def singleton(func):
    """
    Decorator for a zero-argument factory function.
    Caches the first return value in func._instance
    and always returns that thereafter.

    Tests reset a factory with ``delattr(factory.__wrapped__, "_instance")``.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        if not hasattr(func, "_instance"):
            func._instance = func(*args, **kwargs)
        return func._instance

    return wrapper
