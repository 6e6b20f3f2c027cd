"""Unit tests for the clearcast-merge command and FFmpegRunner."""

import subprocess

import pytest
from pathlib import Path
from unittest.mock import patch

from clearcast.merge import cli
from clearcast.merge.ffmpeg import FFmpegError, FFmpegRunner, write_concat_list

from conftest import FakeFFmpeg, write_chunk


def _write_config(temp_data_dir) -> str:
    path = Path(temp_data_dir) / "clearcast.yaml"
    path.write_text(
        "storage:\n  data_directory: uploads\n"
        "logging:\n  file_path: logs/merge.log\n  console_output: false\n"
    )
    return str(path)


@pytest.fixture
def restore_logging():
    import logging
    root = logging.getLogger()
    saved = root.handlers[:]
    yield
    for handler in root.handlers:
        if handler not in saved:
            handler.close()
    root.handlers = saved


@pytest.mark.unit
@pytest.mark.usefixtures("restore_logging")
class TestMergeCli:

    def _run(self, temp_data_dir, ffmpeg, session_key="room1"):
        config_path = _write_config(temp_data_dir)
        with patch.object(cli, "FFmpegRunner", return_value=ffmpeg):
            return cli.main([session_key, "--config", config_path])

    def test_success_with_mix(self, temp_data_dir, capsys):
        uploads = Path(temp_data_dir) / "uploads"
        write_chunk(uploads, "room1", "alice", "audio-1-000001.webm")
        write_chunk(uploads, "room1", "bob", "audio-1-000001.webm")

        assert self._run(temp_data_dir, FakeFFmpeg()) == 0

        assert (uploads / "room1" / "merged" / "final-meeting.mp3").exists()
        out = capsys.readouterr().out
        assert "alice" in out and "bob" in out
        assert "Final mix" in out

    def test_nothing_to_mix_is_success(self, temp_data_dir, capsys):
        uploads = Path(temp_data_dir) / "uploads"
        write_chunk(uploads, "room1", "alice", "audio-1-000001.webm")
        write_chunk(uploads, "room1", "bob", "audio-1-000001.webm", size=10)

        assert self._run(temp_data_dir, FakeFFmpeg()) == 0
        assert "No final mix" in capsys.readouterr().out

    def test_mix_failure_exit_code(self, temp_data_dir):
        uploads = Path(temp_data_dir) / "uploads"
        write_chunk(uploads, "room1", "alice", "audio-1-000001.webm")
        write_chunk(uploads, "room1", "bob", "audio-1-000001.webm")

        assert self._run(temp_data_dir, FakeFFmpeg(fail_mix=True)) == 1

    def test_storage_failure_exit_code(self, temp_data_dir):
        assert self._run(temp_data_dir, FakeFFmpeg(), session_key="..") == 1

    def test_missing_config_exit_code(self, temp_data_dir):
        assert cli.main(["room1", "--config", str(Path(temp_data_dir) / "missing.yaml")]) == 1


@pytest.mark.unit
class TestFFmpegRunner:

    def _completed(self, returncode=0, stdout="", stderr=""):
        return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)

    def test_concat_command(self):
        runner = FFmpegRunner(ffmpeg_path="/usr/bin/ffmpeg")
        with patch("clearcast.merge.ffmpeg.subprocess.run", return_value=self._completed()) as mock_run:
            runner.concat(Path("list.txt"), Path("out.webm"))

        cmd = mock_run.call_args.args[0]
        assert cmd[0] == "/usr/bin/ffmpeg"
        assert cmd[cmd.index("-f") + 1] == "concat"
        assert cmd[cmd.index("-c") + 1] == "copy"
        assert cmd[-1] == "out.webm"

    def test_mix_command(self):
        runner = FFmpegRunner()
        with patch("clearcast.merge.ffmpeg.subprocess.run", return_value=self._completed()) as mock_run:
            runner.mix([Path("a.webm"), Path("b.webm")], Path("final.mp3"))

        cmd = mock_run.call_args.args[0]
        assert cmd.count("-i") == 2
        assert "amix=inputs=2:duration=longest" in cmd
        assert cmd[-1] == "final.mp3"

    def test_nonzero_exit_raises(self):
        runner = FFmpegRunner()
        with patch("clearcast.merge.ffmpeg.subprocess.run",
                   return_value=self._completed(returncode=1, stderr="line\nInvalid data found")):
            with pytest.raises(FFmpegError) as exc_info:
                runner.concat(Path("list.txt"), Path("out.webm"))

        assert exc_info.value.returncode == 1
        assert "Invalid data found" in str(exc_info.value)

    def test_missing_binary_raises(self):
        runner = FFmpegRunner(ffmpeg_path="definitely-not-ffmpeg")
        with patch("clearcast.merge.ffmpeg.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(FFmpegError):
                runner.mix([Path("a.webm")], Path("out.mp3"))

    def test_probe_duration(self):
        runner = FFmpegRunner()
        with patch("clearcast.merge.ffmpeg.subprocess.run", return_value=self._completed(stdout="12.5\n")):
            assert runner.probe_duration(Path("a.mp3")) == 12.5
        with patch("clearcast.merge.ffmpeg.subprocess.run", return_value=self._completed(stdout="N/A\n")):
            assert runner.probe_duration(Path("a.webm")) is None

    def test_write_concat_list_quotes_paths(self, temp_data_dir):
        list_file = Path(temp_data_dir) / "list.txt"
        odd = Path(temp_data_dir) / "it's.webm"

        write_concat_list(list_file, [odd])

        line = list_file.read_text().strip()
        assert line.startswith("file '")
        assert "it'\\''s.webm" in line
