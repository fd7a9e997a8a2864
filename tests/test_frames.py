# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Tests for stack frame source context."""

import traceback

from copilot_error_relay.frames import FrameWithContext, SourceReader, format_frame


class TestCalculateContextLines:
    """Tests for SourceReader.calculate_context_lines."""

    lines = ["l1", "l2", "l3", "l4", "l5"]

    def test_middle_of_file(self):
        """Test a window fully inside the file."""
        window, index = SourceReader.calculate_context_lines(self.lines, 3, 1)

        assert window == ["l2", "l3", "l4"]
        assert index == 1

    def test_window_clipped_at_start(self):
        """Test that the window is clipped at the first line."""
        window, index = SourceReader.calculate_context_lines(self.lines, 1, 2)

        assert window == ["l1", "l2", "l3"]
        assert index == 0

    def test_window_clipped_at_end(self):
        """Test that the window is clipped at the last line."""
        window, index = SourceReader.calculate_context_lines(self.lines, 5, 2)

        assert window == ["l3", "l4", "l5"]
        assert index == 2

    def test_negative_context(self):
        """Test that negative context returns only the frame line."""
        window, index = SourceReader.calculate_context_lines(self.lines, 2, -1)

        assert window == ["l2"]
        assert index == 0

    def test_out_of_range(self):
        """Test out-of-range lines and missing files."""
        assert SourceReader.calculate_context_lines(self.lines, 0, 1) == ([], 0)
        assert SourceReader.calculate_context_lines(self.lines, 6, 1) == ([], 0)
        assert SourceReader.calculate_context_lines(None, 1, 1) == ([], 0)


class TestSourceReader:
    """Tests for SourceReader file access."""

    def test_reads_and_caches_file(self, tmp_path):
        """Test that files are read once and cached."""
        source = tmp_path / "app.py"
        source.write_text("a = 1\nb = 2\nc = 3\n", encoding="utf-8")
        reader = SourceReader()

        window, index = reader.read_context_lines(str(source), 2, 1)
        assert window == ["a = 1", "b = 2", "c = 3"]
        assert index == 1

        source.write_text("changed\n", encoding="utf-8")
        window, _ = reader.read_context_lines(str(source), 2, 1)
        assert window == ["a = 1", "b = 2", "c = 3"]

        reader.clear()
        window, _ = reader.read_context_lines(str(source), 1, 0)
        assert window == ["changed"]

    def test_unreadable_file(self, tmp_path):
        """Test that a missing file yields no context."""
        reader = SourceReader()

        assert reader.read_context_lines(str(tmp_path / "missing.py"), 1, 3) == ([], 0)

    def test_frame_with_context(self, tmp_path):
        """Test building a frame with surrounding lines."""
        source = tmp_path / "svc.py"
        source.write_text("one\ntwo\nthree\nfour\nfive", encoding="utf-8")
        frame = traceback.FrameSummary(str(source), 3, "handler", lookup_line=False)

        result = SourceReader(context_lines=1).frame_with_context(frame)

        assert result == FrameWithContext(
            function="handler",
            filename=str(source),
            lineno=3,
            lines_before="two",
            line_content="three",
            lines_after="four",
        )
        assert result.to_dict()["lineContent"] == "three"


def test_format_frame():
    """Test the plain frame serialization."""
    frame = traceback.FrameSummary("/srv/app.py", 42, "handler", lookup_line=False)

    assert format_frame(frame) == "handler /srv/app.py:42"
