import logging
import unittest

from probe.core import CompanyFormatter


class TestCompanyFormatter(unittest.TestCase):

    def _record(self, **extra):
        record = logging.LogRecord("detector", logging.INFO, __file__, 1, "[PROBE] HEAD failed", None, None)
        record.__dict__.update(extra)
        return record

    def test_site_context(self):
        line = CompanyFormatter().format(self._record(context="example.com"))
        self.assertTrue(line.endswith(" : INFO : example.com : [PROBE] HEAD failed"))

    def test_thread_name_when_no_context(self):
        line = CompanyFormatter().format(self._record(threadName="PathProbe_2"))
        self.assertIn(" : PathProbe_2 : ", line)


if __name__ == "__main__":
    unittest.main()
