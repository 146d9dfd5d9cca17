import numpy as np
import pytest

from cifarnet.dataset import (
    IMAGES_PER_BATCH,
    NUM_CLASSES,
    PIXELS_PER_IMAGE,
    RECORD_SIZE,
    Cifar10Images,
    DataError,
    PreparedData,
    load_batch_file,
    load_cifar10,
    prepare_data,
)


def _make_images(per_class):
    count = per_class * NUM_CLASSES
    ids = np.arange(count)
    pixels = np.zeros((count, PIXELS_PER_IMAGE), dtype=np.uint8)
    pixels[:, 0] = ids % 256
    pixels[:, 1] = ids // 256
    labels = (ids % NUM_CLASSES).astype(np.uint8)
    return Cifar10Images(labels=labels, pixels=pixels)


def _ids(x):
    low = np.rint(x[0] * 255).astype(int)
    high = np.rint(x[1] * 255).astype(int)
    return set((low + 256 * high).tolist())


def _write_batch(path, first_label=0, first_pixel=0):
    with open(path, "wb") as handle:
        handle.write(bytes([first_label]) + bytes([first_pixel]) * PIXELS_PER_IMAGE)
        handle.truncate(IMAGES_PER_BATCH * RECORD_SIZE)


def test_load_batch_file_reads_records(tmp_path):
    path = tmp_path / "data_batch_1.bin"
    _write_batch(path, first_label=3, first_pixel=7)
    images = load_batch_file(path)
    assert len(images) == IMAGES_PER_BATCH
    assert images.labels[0] == 3
    assert np.all(images.pixels[0] == 7)
    assert images.labels[1] == 0
    assert images.pixels.shape == (IMAGES_PER_BATCH, PIXELS_PER_IMAGE)


def test_load_batch_file_missing(tmp_path):
    with pytest.raises(DataError, match="cannot open"):
        load_batch_file(tmp_path / "absent.bin")


def test_load_batch_file_truncated_pixels(tmp_path):
    path = tmp_path / "short.bin"
    path.write_bytes(bytes(RECORD_SIZE * 2 + 10))
    with pytest.raises(DataError, match="pixel data for image 2"):
        load_batch_file(path)


def test_load_batch_file_truncated_label(tmp_path):
    path = tmp_path / "short.bin"
    path.write_bytes(bytes(RECORD_SIZE * 3))
    with pytest.raises(DataError, match="label for image 3"):
        load_batch_file(path)


def test_load_cifar10_concatenates_batches(tmp_path):
    for number in range(1, 6):
        _write_batch(tmp_path / f"data_batch_{number}.bin", first_label=number)
    images = load_cifar10(tmp_path)
    assert len(images) == 5 * IMAGES_PER_BATCH
    assert images.labels[IMAGES_PER_BATCH * 2] == 3
    assert images.labels[IMAGES_PER_BATCH * 4] == 5


def test_load_cifar10_reports_missing_batch(tmp_path):
    _write_batch(tmp_path / "data_batch_1.bin")
    _write_batch(tmp_path / "data_batch_2.bin")
    with pytest.raises(DataError, match="batch 3"):
        load_cifar10(tmp_path)


def test_images_reject_bad_label():
    with pytest.raises(DataError):
        Cifar10Images(labels=np.array([10], dtype=np.uint8),
                      pixels=np.zeros((1, PIXELS_PER_IMAGE), dtype=np.uint8))


def test_images_reject_shape_mismatch():
    with pytest.raises(DataError):
        Cifar10Images(labels=np.zeros(2, dtype=np.uint8),
                      pixels=np.zeros((3, PIXELS_PER_IMAGE), dtype=np.uint8))


def test_prepare_single_process_shapes_and_balance():
    images = _make_images(10)
    data = prepare_data(images, 100, 0, 1)
    assert isinstance(data, PreparedData)
    assert data.x_train.shape == (PIXELS_PER_IMAGE, 90)
    assert data.y_train.shape == (NUM_CLASSES, 90)
    assert (data.train_size, data.test_size) == (90, 10)
    np.testing.assert_array_equal(data.y_train.sum(axis=0), np.ones(90))
    np.testing.assert_array_equal(data.y_train.sum(axis=1), np.full(NUM_CLASSES, 9.0))
    np.testing.assert_array_equal(data.y_test.sum(axis=1), np.ones(NUM_CLASSES))
    assert data.x_train.min() >= 0.0 and data.x_train.max() <= 1.0


def test_prepare_takes_first_images_of_each_class_for_training():
    images = _make_images(10)
    data = prepare_data(images, 100, 0, 1)
    assert _ids(data.x_train) == set(range(90))
    assert _ids(data.x_test) == set(range(90, 100))


def test_prepare_labels_match_pixels():
    images = _make_images(10)
    data = prepare_data(images, 100, 0, 1)
    column_ids = np.rint(data.x_train[0] * 255).astype(int)
    np.testing.assert_array_equal(data.y_train.argmax(axis=0), images.labels[column_ids])
    np.testing.assert_allclose(data.x_train[:, 0] * 255, images.pixels[column_ids[0]])


def test_prepare_ranks_get_disjoint_shares():
    images = _make_images(20)
    shares = [prepare_data(images, 200, rank, 2) for rank in range(2)]
    rank_ids = [_ids(d.x_train) | _ids(d.x_test) for d in shares]
    assert rank_ids[0].isdisjoint(rank_ids[1])
    assert rank_ids[0] | rank_ids[1] == set(range(200))


def test_prepare_not_enough_images():
    with pytest.raises(DataError, match="expected"):
        prepare_data(_make_images(5), 100, 0, 1)


def test_prepare_rejects_bad_rank():
    with pytest.raises(ValueError):
        prepare_data(_make_images(10), 100, 2, 2)


def test_prepare_rejects_too_few_samples():
    with pytest.raises(DataError):
        prepare_data(_make_images(10), 5, 0, 1)