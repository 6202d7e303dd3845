import os
import re

import pytest

from srtvoice.errors import EngineError
from srtvoice.ffmpeg import EngineResult

LOUDNORM_STDERR = """\
Input #0, mp3, from 'merged.mp3':
  Duration: 00:00:05.90, start: 0.000000, bitrate: 128 kb/s
[Parsed_loudnorm_0 @ 0x55d0c8a0] 
{
\t"input_i" : "-23.10",
\t"input_tp" : "-5.20",
\t"input_lra" : "4.30",
\t"input_thresh" : "-33.40",
\t"output_i" : "-16.40",
\t"output_tp" : "-1.50",
\t"output_lra" : "3.90",
\t"output_thresh" : "-26.70",
\t"normalization_type" : "dynamic",
\t"target_offset" : "0.35"
}
"""


class FakeEngine:
    """Stands in for ffmpeg/ffprobe, tracking clip durations by file name."""

    def __init__(self, durations=None, fail_on=None, analysis_stderr=LOUDNORM_STDERR):
        self.durations = dict(durations or {})
        self.fail_on = fail_on
        self.analysis_stderr = analysis_stderr
        self.calls = []

    def probe(self, path):
        self.calls.append(("probe", path))
        name = os.path.basename(path)
        if name not in self.durations:
            raise EngineError(f"cannot probe {name}", returncode=1)
        return {"format": {"duration": str(self.durations[name])}}

    def ffmpeg_calls(self):
        return [args for kind, args in self.calls if kind == "ffmpeg"]

    def run_ffmpeg(self, args):
        args = list(args)
        self.calls.append(("ffmpeg", args))
        out = args[-1]
        if "-f" in args and args[args.index("-f") + 1] == "null":
            if self.fail_on == "analysis":
                return EngineResult(1, "", "analysis exploded")
            return EngineResult(0, "", self.analysis_stderr)

        inputs = [args[i + 1] for i, a in enumerate(args) if a == "-i"]
        if "-filter_complex" in args:
            if self.fail_on == "merge":
                return EngineResult(1, "", "amix exploded")
            graph = args[args.index("-filter_complex") + 1]
            delays = [int(d) for d in re.findall(r"adelay=(\d+)\|", graph)]
            self.durations[os.path.basename(out)] = max(
                d / 1000.0 + self.durations[os.path.basename(p)] for d, p in zip(delays, inputs)
            )
        else:
            af = args[args.index("-af") + 1]
            if af.startswith("atempo"):
                if self.fail_on == "tempo":
                    return EngineResult(1, "", "atempo exploded")
                factor = 1.0
                for stage in re.findall(r"atempo=([\d.]+)", af):
                    factor *= float(stage)
                self.durations[os.path.basename(out)] = self.durations[os.path.basename(inputs[0])] / factor
            elif af.startswith("loudnorm"):
                with open(out, "wb") as f:
                    f.write(b"partial")
                if self.fail_on == "apply":
                    return EngineResult(1, "", "loudnorm exploded")
        with open(out, "wb") as f:
            f.write(b"ID3")
        return EngineResult(0, "", "")


@pytest.fixture
def fake_engine():
    return FakeEngine
