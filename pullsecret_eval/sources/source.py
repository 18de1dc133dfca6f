import abc


class SecretSource(abc.ABC):
    """Abstract base class for a stream of secret lifecycle events."""

    @abc.abstractmethod
    def subscribe(self, on_event, on_error):
        """
        Start delivering events.

        on_event is called with one SecretEvent at a time, never concurrently
        with itself. on_error is called with an exception that makes further
        delivery impossible.
        """
        pass

    @abc.abstractmethod
    def unsubscribe(self):
        """Stop delivery and wait until no callback is running. Safe to call twice."""
        pass

    @abc.abstractmethod
    def wait_for_initial_sync(self, timeout):
        """Block until the initial listing was delivered. Returns False on timeout."""
        pass
