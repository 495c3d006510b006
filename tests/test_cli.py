import contextlib
import io
import logging
import os
import tempfile
import unittest
from pathlib import Path

from lfinder import ScanMode
from lfinder.cli import build_config, build_parser, lfinder_main
from lfinder.config import DEFAULT_SKIP_DIRS, DEFAULT_WORKERS
from lfinder.settings import ScanSettings, SETTINGS_ENVIRONMENT_VARIABLE


def run_main(*argv):
    stdout = io.StringIO()
    stderr = io.StringIO()
    exit_code = 0
    with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
        try:
            lfinder_main(list(argv))
        except SystemExit as e:
            exit_code = e.code
    return exit_code, stdout.getvalue().splitlines(), stderr.getvalue()


class BuildConfigTest(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self._tmpdir.cleanup()

    def parse(self, *argv, settings=None):
        args = build_parser().parse_args(list(argv))
        return build_config(args, settings or ScanSettings())

    def settings_with(self, text):
        settings_file = Path(self._tmpdir.name) / "settings.toml"
        settings_file.write_text(text)
        return ScanSettings(settings_file)

    def test_defaults(self):
        config = self.parse("a.txt")

        self.assertEqual(ScanMode.BOTH, config.mode)
        self.assertEqual(Path("."), config.search_path)
        self.assertEqual(tuple(Path(d) for d in DEFAULT_SKIP_DIRS), config.skip_dirs)
        self.assertEqual(30 * 60, config.timeout)
        self.assertEqual(DEFAULT_WORKERS, config.workers)

    def test_mode_flags(self):
        self.assertEqual(ScanMode.SYMLINKS, self.parse("-s", "a.txt").mode)
        self.assertEqual(ScanMode.HARDLINKS, self.parse("-H", "a.txt").mode)

    def test_mode_flags_are_exclusive(self):
        with contextlib.redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
            self.parse("-s", "-H", "a.txt")

    def test_timeout_in_minutes(self):
        self.assertEqual(90, self.parse("-t", "1.5", "a.txt").timeout)
        self.assertIsNone(self.parse("-t", "0", "a.txt").timeout)

    def test_skip_dirs_extend_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            settings_file = Path(tmpdir) / "settings.toml"
            settings_file.write_text('[scan]\nskip_dirs = ["/mnt/backup", "/proc"]\ntimeout_minutes = 2\nworkers = 3\n')

            config = self.parse("--skip-dir", "/srv/cache", "a.txt", settings=ScanSettings(settings_file))

        self.assertEqual(
            (Path("/proc"), Path("/sys"), Path("/dev"), Path("/mnt/backup"), Path("/srv/cache")),
            config.skip_dirs)
        self.assertEqual(120, config.timeout)
        self.assertEqual(3, config.workers)

    def test_arguments_override_settings(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            settings_file = Path(tmpdir) / "settings.toml"
            settings_file.write_text('[scan]\ntimeout_minutes = 2\nworkers = 3\n')

            config = self.parse("-t", "1", "--workers", "5", "a.txt", settings=ScanSettings(settings_file))

        self.assertEqual(60, config.timeout)
        self.assertEqual(5, config.workers)

    def test_non_numeric_settings_are_rejected(self):
        for text in ('[scan]\nworkers = "many"\n', '[scan]\ntimeout_minutes = true\n',
                     '[scan]\nqueue_size = [1]\n'):
            with self.subTest(text=text), self.assertRaises(ValueError):
                self.parse("a.txt", settings=self.settings_with(text))

    def test_non_positive_queue_size_is_rejected(self):
        with self.assertRaisesRegex(ValueError, "scan.queue_size must be positive"):
            self.parse("a.txt", settings=self.settings_with("[scan]\nqueue_size = 0\n"))

    def test_skip_dirs_must_be_list_of_paths(self):
        for text in ('[scan]\nskip_dirs = "/mnt"\n', '[scan]\nskip_dirs = [1, 2]\n'):
            with self.subTest(text=text), self.assertRaises(ValueError):
                self.parse("a.txt", settings=self.settings_with(text))

    def test_arguments_bypass_invalid_settings(self):
        config = self.parse("-t", "1", "--workers", "2", "a.txt",
                            settings=self.settings_with('[scan]\ntimeout_minutes = "x"\nworkers = "y"\n'))

        self.assertEqual(60, config.timeout)
        self.assertEqual(2, config.workers)


class LfinderMainTest(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.base = Path(self._tmpdir.name)
        self.original_env = os.environ.pop(SETTINGS_ENVIRONMENT_VARIABLE, None)

    def tearDown(self):
        self._tmpdir.cleanup()
        if self.original_env is not None:
            os.environ[SETTINGS_ENVIRONMENT_VARIABLE] = self.original_env

    @unittest.skipUnless(os.name == 'posix', "POSIX inode semantics required")
    def test_prints_matches(self):
        root = self.base / "root"
        (root / "sub").mkdir(parents=True)
        (root / "a.txt").write_text("content")
        (root / "link_to_a").symlink_to("a.txt")
        os.link(root / "a.txt", root / "sub" / "hard_a")
        (root / "sub" / "other.txt").write_text("other")

        exit_code, lines, _ = run_main("-p", str(root), "a.txt")

        self.assertEqual(0, exit_code)
        self.assertEqual({
            f"{root / 'link_to_a'} (symlink) -> a.txt",
            f"{root / 'sub' / 'hard_a'} (hardlink)",
        }, set(lines))

    def test_missing_target_exits_nonzero(self):
        exit_code, lines, stderr = run_main("-p", str(self.base), "missing.txt")

        self.assertEqual(1, exit_code)
        self.assertEqual([], lines)
        self.assertIn("Error: cannot access target file", stderr)

    def test_missing_target_argument_is_usage_error(self):
        exit_code, lines, _ = run_main("-p", str(self.base))

        self.assertNotEqual(0, exit_code)
        self.assertEqual([], lines)

    def test_invalid_worker_count_is_usage_error(self):
        (self.base / "a.txt").write_text("content")

        exit_code, _, stderr = run_main("--workers", "0", "-p", str(self.base), "a.txt")

        self.assertEqual(2, exit_code)
        self.assertIn("--workers must be positive", stderr)

    def test_log_file(self):
        (self.base / "a.txt").write_text("content")
        (self.base / "link").symlink_to("a.txt")
        log_file = self.base / "lfinder.log"

        root_logger = logging.getLogger()
        saved_handlers = root_logger.handlers[:]
        saved_level = root_logger.level
        root_logger.handlers.clear()
        try:
            exit_code, lines, _ = run_main("--log-file", str(log_file), "--skip-dir", str(self.base / "lfinder.log"),
                                           "-s", "-p", str(self.base), "a.txt")
        finally:
            for handler in root_logger.handlers[:]:
                handler.close()
                root_logger.removeHandler(handler)
            root_logger.handlers.extend(saved_handlers)
            root_logger.setLevel(saved_level)

        self.assertEqual(0, exit_code)
        self.assertEqual([f"{self.base / 'link'} (symlink) -> a.txt"], lines)
        self.assertIn("lfinder.scanner - INFO - Scan completed", log_file.read_text())

    def run_with_settings(self, text):
        (self.base / "a.txt").write_text("content")
        settings_file = self.base / "settings.toml"
        settings_file.write_text(text)
        return run_main("--settings", str(settings_file), "-p", str(self.base), "a.txt")

    def test_malformed_settings_file_exits_with_error(self):
        exit_code, lines, stderr = self.run_with_settings("[scan\nworkers = 2\n")

        self.assertEqual(1, exit_code)
        self.assertEqual([], lines)
        self.assertIn("Error: invalid settings", stderr)
        self.assertNotIn("Traceback", stderr)

    def test_mistyped_settings_exit_with_error(self):
        for text in ('[scan]\nworkers = "many"\n', '[scan]\ntimeout_minutes = true\n',
                     '[scan]\nskip_dirs = "/mnt"\n', '[scan]\nqueue_size = 0\n', '[logging]\nlevel = "LOUD"\n'):
            with self.subTest(text=text):
                exit_code, lines, stderr = self.run_with_settings(text)

                self.assertEqual(1, exit_code)
                self.assertEqual([], lines)
                self.assertIn("Error: invalid settings", stderr)

    def test_unreadable_settings_path_exits_with_error(self):
        (self.base / "a.txt").write_text("content")
        (self.base / "settings_dir").mkdir()

        exit_code, lines, stderr = run_main("--settings", str(self.base / "settings_dir"), "-p", str(self.base), "a.txt")

        self.assertEqual(1, exit_code)
        self.assertEqual([], lines)
        self.assertTrue(stderr.startswith("Error: "))
