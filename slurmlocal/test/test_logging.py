import io
import logging as py_logging

from slurmlocal import logging

from twisted.trial import unittest



class LoggingTestCase(unittest.TestCase):

    def setUp(self):
        self.events = []
        self.lastEvent = None

        self.logger = logging.Logger('slurmlocal.test')
        self.filter = self.logger.addObserver(self.logObserver)


    def tearDown(self):
        self.logger.removeObserver(self.filter)


    def logObserver(self, event):
        self.lastEvent = event
        self.events.append(event)


    def test_message(self):
        self.logger.log('format {0} with {1}', 5, 10)
        self.assertEqual(self.lastEvent['message'], ('format 5 with 10',))

        self.logger.log(['a', 'list', 'of', 'words'])
        self.assertEqual(self.lastEvent['message'],
                (['a', 'list', 'of', 'words'],))

        self.assertRaises(TypeError, self.logger.log, 1, 2)


    def test_bracesWithoutArguments(self):
        self.logger.info('literal {braces}')
        self.assertEqual(self.lastEvent['message'], ('literal {braces}',))


    def test_system(self):
        child = self.logger.child('munged')
        child.info('started')

        self.assertEqual(self.lastEvent['system'], 'munged')
        self.assertEqual(self.lastEvent['name'], 'slurmlocal.test')


    def test_printFormatted(self):
        out = io.StringIO()
        logging.printFormatted({'system': '-', 'message': ''}, stream=out)
        self.assertTrue(out.getvalue())

        # Default severity
        out = io.StringIO()
        logging.printFormatted({'system': '-', 'message': ''}, stream=out,
                severity=50)
        self.assertFalse(out.getvalue())

        # Explicit severity
        out = io.StringIO()
        logging.printFormatted({'system': '-', 'message': '', 'severity': 40},
                stream=out, severity=50)
        self.assertFalse(out.getvalue())

        out = io.StringIO()
        logging.printFormatted({'system': '-', 'message': '', 'severity': 40},
                stream=out, severity=30)
        self.assertTrue(out.getvalue())


    def test_errorsGoToErrorStream(self):
        out, err = io.StringIO(), io.StringIO()

        logging.printFormatted({'system': 'x', 'message': ('fine',),
                'severity': py_logging.INFO}, out, errorStream=err)
        logging.printFormatted({'system': 'x', 'message': ('broken',),
                'severity': py_logging.ERROR}, out, errorStream=err)

        self.assertIn('fine', out.getvalue())
        self.assertNotIn('broken', out.getvalue())
        self.assertIn('broken', err.getvalue())
        self.assertIn('[x]', err.getvalue())


    def test_exception(self):
        try:
            raise Exception()
        except Exception as e:
            self.logger.exception(e, 'format {0} with {1}', 5, 10)

            self.assertEqual(self.lastEvent['isError'], 1)
            self.assertEqual(self.lastEvent['message'], tuple())
            self.assertEqual(self.lastEvent['why'], 'format 5 with 10',)

            self.flushLoggedErrors(Exception)


    def test_filter(self):
        loggers = {
            'x': [5, 0, None, None],
            'x.a': [3, 0, None, None],
            'x.a.b': [2, 0, None, None],
            'x.a.b.c': [1, 0, None, None],
            'x.c.b': [1, 0, None, None],
        }

        def checkName(event, name):
            self.assertTrue(event['name'].startswith(name))
            loggers[name][1] += 1

        for name, values in loggers.items():
            values[2] = logging.Logger(name)
            values[3] = values[2].addObserver(checkName, name)

        try:
            for logger in loggers.values():
                logger[2].log('msg')
        finally:
            for logger in loggers.values():
                logger[2].removeObserver(logger[3])

        for logger in loggers.values():
            self.assertEqual(logger[0], logger[1])


    def test_severity(self):
        self.logger.debug('msg')
        self.assertEqual(self.lastEvent['severity'], py_logging.DEBUG)

        self.logger.info('msg')
        self.assertEqual(self.lastEvent['severity'], py_logging.INFO)

        self.logger.warning('msg')
        self.assertEqual(self.lastEvent['severity'], py_logging.WARNING)

        self.logger.warn('msg')
        self.assertEqual(self.lastEvent['severity'], py_logging.WARNING)

        self.logger.error('msg')
        self.assertEqual(self.lastEvent['severity'], py_logging.ERROR)

        self.logger.err('msg')
        self.assertEqual(self.lastEvent['severity'], py_logging.ERROR)

        self.logger.critical('msg')
        self.assertEqual(self.lastEvent['severity'], py_logging.CRITICAL)

        self.logger.log('msg')
        self.assertFalse('severity' in self.lastEvent)

        self.logger.log('msg', severity=23)
        self.assertEqual(self.lastEvent['severity'], 23)


    def test_startConsoleLogging(self):
        out, err = io.StringIO(), io.StringIO()

        root = logging.startConsoleLogging(stream=out, errorStream=err)

        try:
            self.logger.debug('hidden')
            self.logger.info('shown')
            self.logger.error('failed')
        finally:
            root.removeObserver(root.filters[-1])

        self.assertNotIn('hidden', out.getvalue())
        self.assertIn('shown', out.getvalue())
        self.assertIn('failed', err.getvalue())
