import json
import os

import pytest

from srtvoice.config import PipelineConfig
from srtvoice.errors import MergeEngineError, NothingToMergeError
from srtvoice.runner import PipelineRunner, prepare_scratch_dir
from srtvoice.types import Cue, RunState


def _config(tmp_path, **kwargs):
    return PipelineConfig(
        temp_dir=str(tmp_path / "temp_audio"), out_dir=str(tmp_path / "out"), srt_dir=str(tmp_path / "srt"), **kwargs
    )


def _synth(failing=()):
    calls = []

    def synth(text, cue_id, config):
        calls.append((cue_id, text))
        if cue_id in failing:
            return None
        return b"ID3" + text.encode()

    synth.calls = calls
    return synth


SCENARIO = [
    Cue(id=1, start_ms=1000, end_ms=3000, text="A"),
    Cue(id=2, start_ms=5000, end_ms=6000, text="B"),
    Cue(id=3, start_ms=8000, end_ms=9000, text=""),
]


def test_three_cue_scenario(tmp_path, fake_engine):
    engine = fake_engine({"temp_1.mp3": 3.0, "temp_2.mp3": 0.9})
    synth = _synth()
    runner = PipelineRunner(_config(tmp_path), engine=engine, synthesizer=synth)
    output = str(tmp_path / "out" / "episode.mp3")

    result = runner.run(SCENARIO, output)

    assert runner.state is RunState.DONE
    assert [c.start_offset_ms for c in result.clips] == [1000, 5000]
    assert [c.cue_id for c in result.clips] == [1, 2]
    assert result.skipped_cue_ids == [3]
    assert [cue_id for cue_id, _ in synth.calls] == [1, 2]

    first, second = result.clips
    assert first.speed == pytest.approx(1.5)
    assert os.path.basename(first.path) == "processed_1.mp3"
    assert first.duration_ms == pytest.approx(2000.0)
    assert second.speed == 1.0
    assert os.path.basename(second.path) == "temp_2.mp3"
    assert second.duration_ms == pytest.approx(900.0)

    tempo_calls = [a for a in engine.ffmpeg_calls() if "-af" in a and a[a.index("-af") + 1].startswith("atempo")]
    assert len(tempo_calls) == 1 and tempo_calls[0][tempo_calls[0].index("-af") + 1] == "atempo=1.5"

    merge_call = next(a for a in engine.ffmpeg_calls() if "-filter_complex" in a)
    merged_name = os.path.basename(merge_call[-1])
    assert engine.durations[merged_name] * 1000 >= 5000 + 900

    loudnorm_apply = engine.ffmpeg_calls()[-1]
    assert "offset=7.10" in loudnorm_apply[loudnorm_apply.index("-af") + 1]
    assert os.path.exists(output)
    # merged intermediate removed, per-cue clips kept
    assert not os.path.exists(merge_call[-1])
    assert sorted(os.listdir(tmp_path / "temp_audio")) == ["processed_1.mp3", "temp_1.mp3", "temp_2.mp3"]


def test_failed_cues_leave_gaps_without_reordering(tmp_path, fake_engine):
    cues = [
        Cue(id=10, start_ms=0, end_ms=1000, text="one"),
        Cue(id=4, start_ms=2000, end_ms=3000, text="two"),
        Cue(id=7, start_ms=4000, end_ms=5000, text=":)"),
        Cue(id=2, start_ms=6000, end_ms=7000, text="four"),
        Cue(id=9, start_ms=8000, end_ms=9000, text="five"),
    ]
    # cue 9 has no probe duration, cue 4 fails synthesis, cue 7 is empty after cleanup
    engine = fake_engine({"temp_10.mp3": 0.5, "temp_2.mp3": 0.5})
    runner = PipelineRunner(_config(tmp_path), engine=engine, synthesizer=_synth(failing={4}))
    result = runner.run(cues, str(tmp_path / "out" / "x.mp3"))
    assert [c.cue_id for c in result.clips] == [10, 2]
    assert result.skipped_cue_ids == [4, 7, 9]


def test_parallel_workers_keep_cue_order(tmp_path, fake_engine):
    cues = [Cue(id=i, start_ms=i * 1000, end_ms=i * 1000 + 800, text=f"cue {i}") for i in range(1, 9)]
    engine = fake_engine({f"temp_{i}.mp3": 0.5 for i in range(1, 9)})
    runner = PipelineRunner(_config(tmp_path, workers=4), engine=engine, synthesizer=_synth())
    result = runner.run(cues, str(tmp_path / "out" / "x.mp3"))
    assert [c.cue_id for c in result.clips] == list(range(1, 9))


def test_dictionary_applied_before_synthesis(tmp_path, fake_engine):
    synth = _synth()
    runner = PipelineRunner(
        _config(tmp_path),
        engine=fake_engine({"temp_1.mp3": 0.5}),
        synthesizer=synth,
        dictionary={"AI": {"value": "A I", "caseSensitive": True}},
    )
    runner.run([Cue(id=1, start_ms=0, end_ms=1000, text="AI rocks qwq")], str(tmp_path / "out" / "x.mp3"))
    assert synth.calls == [(1, "A I rocks")]


def test_nothing_to_merge(tmp_path, fake_engine):
    runner = PipelineRunner(_config(tmp_path), engine=fake_engine(), synthesizer=_synth())
    with pytest.raises(NothingToMergeError):
        runner.run([Cue(id=1, start_ms=0, end_ms=1000, text="  ")], str(tmp_path / "out" / "x.mp3"))
    assert runner.state is RunState.FAILED


def test_merge_failure_is_fatal(tmp_path, fake_engine):
    engine = fake_engine({"temp_1.mp3": 0.5}, fail_on="merge")
    runner = PipelineRunner(_config(tmp_path), engine=engine, synthesizer=_synth())
    output = tmp_path / "out" / "x.mp3"
    with pytest.raises(MergeEngineError):
        runner.run([Cue(id=1, start_ms=0, end_ms=1000, text="hi")], str(output))
    assert runner.state is RunState.FAILED
    assert not output.exists()
    assert os.listdir(tmp_path / "temp_audio") == ["temp_1.mp3"]


def test_scratch_dir_cleared_each_run(tmp_path):
    scratch = tmp_path / "temp_audio"
    scratch.mkdir()
    (scratch / "stale.mp3").write_bytes(b"old")
    prepare_scratch_dir(str(scratch))
    assert os.listdir(scratch) == []


def test_run_file_defaults_output_name(tmp_path, fake_engine):
    cues = tmp_path / "talk.json"
    cues.write_text(json.dumps([{"id": 1, "start": "00:00:00,500", "end": "00:00:02,000", "text": "hello"}]))
    config = _config(tmp_path)
    runner = PipelineRunner(config, engine=fake_engine({"temp_1.mp3": 1.0}), synthesizer=_synth())
    result = runner.run_file(str(cues))
    assert result.output_path == os.path.join(config.out_dir, "talk.mp3")
    assert result.clips[0].start_offset_ms == 500
    assert os.path.exists(result.output_path)


def test_duplicate_cue_ids_do_not_share_a_clip(tmp_path, fake_engine):
    cues = [
        Cue(id=5, start_ms=0, end_ms=1000, text="first"),
        Cue(id=5, start_ms=2000, end_ms=3000, text="second"),
        Cue(id=6, start_ms=4000, end_ms=5000, text="third"),
    ]
    engine = fake_engine({"temp_5.mp3": 0.5, "temp_6.mp3": 0.5})
    synth = _synth()
    runner = PipelineRunner(_config(tmp_path), engine=engine, synthesizer=synth)
    result = runner.run(cues, str(tmp_path / "out" / "x.mp3"))
    assert [c.cue_id for c in result.clips] == [5, 6]
    assert result.skipped_cue_ids == [5]
    assert len({c.path for c in result.clips}) == 2
    assert (tmp_path / "temp_audio" / "temp_5.mp3").read_bytes() == b"ID3first"
    assert [text for _, text in synth.calls] == ["first", "third"]


def test_unwritable_clip_is_skipped(tmp_path, fake_engine):
    config = _config(tmp_path)

    def synth(text, cue_id, cfg):
        if cue_id == 1:
            # a directory where the clip file should go makes the write fail
            os.makedirs(os.path.join(cfg.temp_dir, "temp_1.mp3"))
        return b"ID3" + text.encode()

    engine = fake_engine({"temp_2.mp3": 0.5})
    runner = PipelineRunner(config, engine=engine, synthesizer=synth)
    result = runner.run(
        [Cue(id=1, start_ms=0, end_ms=1000, text="a"), Cue(id=2, start_ms=2000, end_ms=3000, text="b")],
        str(tmp_path / "out" / "x.mp3"),
    )
    assert [c.cue_id for c in result.clips] == [2]
    assert result.skipped_cue_ids == [1]


def test_os_error_while_normalizing_fails_run(tmp_path, fake_engine):
    # a non-empty directory at the destination makes moving the result into place fail
    output = tmp_path / "out" / "x.mp3"
    output.mkdir(parents=True)
    (output / "keep").write_bytes(b"")
    runner = PipelineRunner(_config(tmp_path), engine=fake_engine({"temp_1.mp3": 0.5}), synthesizer=_synth())
    with pytest.raises(OSError):
        runner.run([Cue(id=1, start_ms=0, end_ms=1000, text="hi")], str(output))
    assert runner.state is RunState.FAILED
    assert output.is_dir()
