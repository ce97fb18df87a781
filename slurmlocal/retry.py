"""
Bounded polling. Every "wait until something is ready" step of the bootstrap
goes through ``waitUntil``: a fixed number of attempts separated by a fixed
interval, never an open-ended wait.
"""



from twisted.internet import defer, endpoints, protocol, task



@defer.inlineCallbacks
def waitUntil(reactor, predicate, attempts, interval):
    """
    Calls ``predicate`` (which can return a plain value or a deferred) up to
    ``attempts`` times, sleeping ``interval`` seconds between two calls.

    Returns a deferred which fires with ``True`` as soon as the predicate
    returns a true value, or with ``False`` once the attempts are exhausted.
    Exceptions raised by the predicate are propagated.
    """

    for attempt in range(attempts):
        ready = yield defer.maybeDeferred(predicate)

        if ready:
            return True

        if attempt + 1 < attempts:
            yield task.deferLater(reactor, interval, lambda: None)

    return False



def tcpReachable(reactor, host, port, timeout=1):
    """
    Returns a deferred which fires with ``True`` if a TCP connection to
    ``host:port`` can be established, ``False`` otherwise. The connection is
    closed right away.
    """

    endpoint = endpoints.TCP4ClientEndpoint(reactor, host, port,
            timeout=timeout)
    d = endpoints.connectProtocol(endpoint, protocol.Protocol())

    def connected(proto):
        proto.transport.loseConnection()
        return True

    d.addCallbacks(connected, lambda _: False)
    return d



def fileExists(path):
    """
    Returns a predicate checking for the existence of the file at ``path``
    (a ``twisted.python.filepath.FilePath``).
    """

    def exists():
        path.restat(reraise=False)
        return path.isfile()

    return exists
