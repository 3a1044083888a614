import pytest

from camera_app.engine.audit import warnings_in
from camera_app.engine.camera_params import CameraParameters, MZTolerance
from camera_app.engine.camera_search import CameraSearchTask, run_camera
from camera_app.engine.peak_matrix import build_camera_input
from camera_app.engine.peak_model import PROPERTY_ISOTOPE, PROPERTY_METHOD, PeakList, RowAnnotation
from camera_app.engine.r_bridge import R_SEMAPHORE
from camera_app.engine.task_control import TaskStatus
from camera_app.tests.camera_test_utils import (
    FakeREngine,
    make_example_peak_list,
    make_raw_file,
)


def _task(engine, peak_list=None, parameters=None):
    peak_list = peak_list or make_example_peak_list()
    factory_calls = []

    def _factory():
        factory_calls.append(True)
        return engine

    task = CameraSearchTask(parameters or CameraParameters(), peak_list, engine_factory=_factory)
    return task, factory_calls


def _stage_index(engine, fragment):
    for idx, expression in enumerate(engine.expressions):
        if fragment in expression:
            return idx
    raise AssertionError(f"{fragment} was never evaluated")


def test_example_peaks_share_pseudo_spectrum_and_isotope():
    engine = FakeREngine(spectra=[7, 7], isotopes=["[1]+", "[1]+"])
    task, _ = _task(engine)

    task.run()

    assert task.status is TaskStatus.FINISHED, task.error_message
    assert task.progress == 1.0
    for row in task.peak_list.rows:
        identity = row.identities[-1]
        assert identity.name == "Pseudo-spectrum #007"
        assert identity.get_property(PROPERTY_ISOTOPE) == "+"
        assert identity.get_property(PROPERTY_METHOD) == "Bioconductor CAMERA"
    assert task.description == "Identification of pseudo-spectra in example peaks"


def test_multiple_raw_files_fail_before_touching_r():
    engine = FakeREngine(spectra=[1])
    peak_list = PeakList("aligned", [make_raw_file("a.mzML"), make_raw_file("b.mzML")])
    task, factory_calls = _task(engine, peak_list=peak_list)

    task.run()

    assert task.status is TaskStatus.ERROR
    assert "single raw data file" in task.error_message
    assert factory_calls == []
    assert engine.calls == []


def test_invalid_parameters_fail_before_touching_r():
    engine = FakeREngine(spectra=[1, 1])
    task, factory_calls = _task(engine, parameters=CameraParameters(fwhm_sigma=0.0))

    task.run()

    assert task.status is TaskStatus.ERROR
    assert "FWHM sigma" in task.error_message
    assert factory_calls == []


@pytest.mark.parametrize(
    "installed, current, message",
    [
        (False, True, "couldn't be loaded - is it installed in R?"),
        (True, False, "please update CAMERA to version 1.12 or later"),
    ],
)
def test_camera_preflight_failures_abort_without_annotations(installed, current, message):
    engine = FakeREngine(spectra=[1, 1], camera_installed=installed, camera_current=current)
    task, _ = _task(engine)

    task.run()

    assert task.status is TaskStatus.ERROR
    assert message in task.error_message
    assert not any(kind == "assign" for kind, _ in engine.calls)
    assert all(not row.identities for row in task.peak_list.rows)
    assert task.progress == 0.0


def test_stages_run_in_order_with_parameters():
    engine = FakeREngine(spectra=[1, 2], isotopes=["", ""])
    parameters = CameraParameters(
        fwhm_sigma=0.3,
        fwhm_percentage=0.5,
        isotopes_max_charge=2,
        isotopes_maximum=5,
        isotopes_mz_tolerance=MZTolerance(mz=0.01, ppm=5.0),
        correlation_threshold=0.8,
        correlation_p_value=0.01,
    )
    task, _ = _task(engine, parameters=parameters)

    task.run()

    assert task.status is TaskStatus.FINISHED, task.error_message
    expressions = engine.expressions
    assert "an <- groupFWHM(an, sigma=0.3, perfwhm=0.5)" in expressions
    assert "an <- findIsotopes(an, maxcharge=2, maxiso=5, ppm=5.0, mzabs=0.01)" in expressions
    assert "an <- groupCorr(an, calcIso=TRUE, xraw=xRaw, cor_eic_th=0.8, pval=0.01)" in expressions
    order = [
        _stage_index(engine, "require(CAMERA)"),
        _stage_index(engine, "xsAnnotate"),
        _stage_index(engine, "groupFWHM"),
        _stage_index(engine, "findIsotopes"),
        _stage_index(engine, "groupCorr"),
        _stage_index(engine, "getPeaklist"),
    ]
    assert order == sorted(order)


def test_inputs_are_assigned_to_r():
    engine = FakeREngine(spectra=[1, 1])
    task, _ = _task(engine)

    task.run()

    assert engine.assigned["peaks"].shape == (2, 10)
    assert engine.assigned["peaks"][:, 0].tolist() == [500.1, 500.3]
    assert engine.assigned["scanindex"].tolist() == [1, 3, 6, 9]
    assert engine.assigned["mass"].size == 10
    assert engine.assigned["sampleName"] == "example peaks"


def test_progress_is_monotonic_and_completes():
    engine = FakeREngine(spectra=[1, 1])
    task, _ = _task(engine)
    seen = []
    task.add_listener(lambda t: seen.append(t.progress))

    task.run()

    assert seen == sorted(seen)
    assert [value for value in (0.25, 0.5, 0.75, 1.0) if value in seen] == [0.25, 0.5, 0.75, 1.0]
    assert seen[-1] == 1.0


def test_engine_gate_is_held_for_every_call():
    engine = FakeREngine(spectra=[1, 1])
    engine.watch_lock(R_SEMAPHORE)
    task, _ = _task(engine)

    task.run()

    assert engine.lock_held_during_calls
    assert all(engine.lock_held_during_calls)
    assert not R_SEMAPHORE.locked()


def test_failed_stage_commits_nothing():
    engine = FakeREngine(spectra=[1, 1], failures=[r"groupCorr"])
    task, _ = _task(engine)

    task.run()

    assert task.status is TaskStatus.ERROR
    assert "groupCorr" in task.error_message
    assert task.progress == 0.5
    assert all(not row.identities for row in task.peak_list.rows)
    assert not R_SEMAPHORE.locked()


def test_result_length_mismatch_is_an_error():
    engine = FakeREngine(spectra=[1])
    task, _ = _task(engine)

    task.run()

    assert task.status is TaskStatus.ERROR
    assert "1 pseudo-spectra for 2 peaks" in task.error_message
    assert task.progress < 1.0


def test_irregular_isotope_only_warns():
    engine = FakeREngine(spectra=[4, 4], isotopes=["oops", "[1]+"])
    task, _ = _task(engine)

    task.run()

    assert task.status is TaskStatus.FINISHED
    assert warnings_in(task.audit) == ["WARNING: Irregular isotope value: oops"]
    first, second = task.peak_list.rows
    assert first.identities[-1].name == "Pseudo-spectrum #004"
    assert first.identities[-1].get_property(PROPERTY_ISOTOPE) is None
    assert second.identities[-1].get_property(PROPERTY_ISOTOPE) == "+"


def test_empty_isotope_is_recorded_as_warning():
    engine = FakeREngine(spectra=[1, 1], isotopes=["", "[1]+"])
    task, _ = _task(engine)

    task.run()

    assert task.status is TaskStatus.FINISHED
    assert warnings_in(task.audit) == ["WARNING: Empty isotope value for row 1"]
    first, second = task.peak_list.rows
    assert first.identities[-1].get_property(PROPERTY_ISOTOPE) is None
    assert second.identities[-1].get_property(PROPERTY_ISOTOPE) == "+"


def test_existing_row_identities_survive_search():
    engine = FakeREngine(spectra=[2, 3])
    peak_list = make_example_peak_list()
    peak_list.rows[0].add_identity(RowAnnotation("Known compound"))
    task, _ = _task(engine, peak_list=peak_list)

    task.run()

    assert [i.name for i in peak_list.rows[0].identities] == ["Known compound", "Pseudo-spectrum #002"]
    assert [i.name for i in peak_list.rows[1].identities] == ["Pseudo-spectrum #003"]


def test_cancel_before_start_skips_run():
    engine = FakeREngine(spectra=[1, 1])
    task, factory_calls = _task(engine)

    task.cancel()
    task.run()

    assert task.status is TaskStatus.CANCELED
    assert factory_calls == []


def test_cancel_during_translation_stops_before_stages():
    engine = FakeREngine(spectra=[1, 1])
    peak_list = make_example_peak_list()
    task = CameraSearchTask(CameraParameters(), peak_list, engine_factory=lambda: (task.cancel(), engine)[1])

    task.run()

    assert task.status is TaskStatus.CANCELED
    assert not any("groupFWHM" in expression for expression in engine.expressions)
    assert all(not row.identities for row in peak_list.rows)
    assert not R_SEMAPHORE.locked()


def test_run_camera_returns_results_directly():
    peak_list = make_example_peak_list()
    raw = peak_list.get_raw_file(0)
    camera_input = build_camera_input(peak_list.get_peaks(raw), raw)
    engine = FakeREngine(spectra=[9, 9], isotopes=None)
    stages = []

    result = run_camera(engine, camera_input, CameraParameters(), "direct", on_stage=stages.append)

    assert result.spectra == [9, 9]
    assert result.isotopes is None
    assert stages == ["groupFWHM", "findIsotopes", "groupCorr"]
