"""
Logging facilities to combine the advantges of both Python's standard logging
module and Twisted's logging facility.
"""



from datetime import datetime

import logging
import sys

from twisted.python import log



def printFormatted(event, stream, severity=0, errorStream=None):
    """
    Log observer to print a formatted log entry to the console. The format is
    suitable for interactive reading but not so good for file based output.

    Events with a severity of ``logging.ERROR`` or above are written to
    ``errorStream`` when one is given.
    """

    eventSeverity = event.get('severity', logging.INFO)

    if event.get('isError'):
        eventSeverity = max(eventSeverity, logging.ERROR)

    if eventSeverity < severity:
        return

    system = event.get('system', '-')
    indent = ' ' * (15 + len(system))

    message = log.textFromEventDict(dict(event,
            isError=event.get('isError', 0))) or ''
    message = '\n'.join([indent + l for l in message.splitlines()])
    message = message.lstrip()

    if errorStream is not None and eventSeverity >= logging.ERROR:
        stream = errorStream

    stream.write('{severity:>10s}: [{system}] {message}\n'.format(**{
        'severity': logging.getLevelName(eventSeverity),
        'system': system,
        'message': message,
    }))
    stream.flush()



class Logger(object):
    """
    A logging class to combine features from both Python's logging system and
    Twisted's logging facility in one place.
    """

    def __init__(self, name='', **kwargs):
        """
        Constructs a new logger which filters events for the given name. An
        empty string (the default) can be used to disable filtering and capture
        all events.

        All keyword arguments will be set as keys in the dictionary of each
        log event sent by this logger.
        """

        self.name = name
        self.config = kwargs
        self.config['name'] = name
        self.filters = []


    def child(self, system):
        """
        Returns a logger with the same name and configuration but tagging its
        events with another ``system``.
        """

        config = dict(self.config)
        config['system'] = system
        return Logger(**config)


    def addObserver(self, observer, *args, **kwargs):
        """
        Adds the ``observer`` callable to the observers for this logger.

        The observer is only called with events matching the logger name. It is
        invoked with the provided ``*args`` and ``**kwargs``.

        Returns the installed filter so that it can be passed to
        ``removeObserver`` later on.
        """

        def observerFilter(event):
            """Filters events by name before calling the observer."""
            if event.get('name', '').startswith(self.name):
                observer(event, *args, **kwargs)

        log.addObserver(observerFilter)
        self.filters.append(observerFilter)
        return observerFilter


    def removeObserver(self, observerFilter):
        log.removeObserver(observerFilter)
        self.filters.remove(observerFilter)


    def log(self, msg, *args, **kwargs):
        """
        Proxy to the ``twisted.python.log.msg`` function which adds the config
        keys to the event dictionary and adds a timestamp to it.

        If the ``msg`` argument is a string, it will be formatted using the
        data provided in the ``*args``.

        The formatting operation uses the new python formatting syntax (string
        ``format`` method) and not the old formatting operation (``%``
        operator).
        """

        config = self.config.copy()
        config.update(kwargs)
        config['timestamp'] = datetime.now()

        if isinstance(msg, str) and args:
            msg = msg.format(*args)
        elif args:
            raise TypeError('The msg parameter is not a string but '
                    'formatting parameters were passed in')

        log.msg(msg, **config)


    def exception(self, _stuff=None, _why=None, *args, **kwargs):
        """
        Proxy to the ``twisted.python.log.err`` function which adds the config
        keys to the event dictionary and adds a timestamp to it.
        """

        config = self.config.copy()
        config.update(kwargs)
        config['timestamp'] = datetime.now()

        if _why is not None:
            _why = _why.format(*args)

        log.err(_stuff, _why, **config)


    def debug(self, msg, *args, **kwargs):
        """
        Proxy for the ``log`` method which sets the event severity to
        ``logging.DEBUG``.
        """

        kwargs['severity'] = logging.DEBUG
        self.log(msg, *args, **kwargs)


    def info(self, msg, *args, **kwargs):
        kwargs['severity'] = logging.INFO
        self.log(msg, *args, **kwargs)


    def warning(self, msg, *args, **kwargs):
        kwargs['severity'] = logging.WARNING
        self.log(msg, *args, **kwargs)
    warn = warning


    def error(self, msg, *args, **kwargs):
        kwargs['severity'] = logging.ERROR
        self.log(msg, *args, **kwargs)
    err = error


    def critical(self, msg, *args, **kwargs):
        kwargs['severity'] = logging.CRITICAL
        self.log(msg, *args, **kwargs)



def startConsoleLogging(debug=False, stream=None, errorStream=None):
    """
    Prints every event to the standard output (and errors to the standard
    error) in the ``printFormatted`` format. Returns the root logger.
    """

    stream = stream or sys.stdout
    errorStream = errorStream or sys.stderr

    loglevel = logging.DEBUG if debug else logging.INFO

    root = Logger()
    root.addObserver(printFormatted, stream, severity=loglevel,
            errorStream=errorStream)
    return root
