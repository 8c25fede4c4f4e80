from vrmreduce.reducer.gc import (
    collect_garbage,
    remove_unused_accessors,
    remove_unused_buffer_views,
    remove_unused_images,
    remove_unused_textures,
)
from vrmreduce.reducer.textures import delete_vrm_thumbnail


def test_collect_garbage_removes_unreachable(avatar_doc):
    gltf = avatar_doc.gltf
    views_before = len(gltf.buffer_views)
    accessors_before = len(gltf.accessors)

    results = collect_garbage(avatar_doc)

    assert [r.name for r in results] == [
        "remove_unused_textures",
        "remove_unused_images",
        "remove_unused_accessors",
        "remove_unused_buffer_views",
    ]
    assert [r.details["removed"] for r in results] == [1, 1, 1, 2]
    assert len(gltf.textures) == 2
    assert [image.name for image in gltf.images] == ["albedo", "thumbnail"]
    assert len(gltf.accessors) == accessors_before - 1
    assert len(gltf.buffer_views) == views_before - 2


def test_references_are_remapped(avatar_doc):
    gltf = avatar_doc.gltf
    delete_vrm_thumbnail(avatar_doc)
    collect_garbage(avatar_doc)

    assert len(gltf.textures) == 1
    assert gltf.textures[0].source == 0
    assert [image.name for image in gltf.images] == ["albedo"]
    assert gltf.materials[0].pbr_metallic_roughness.base_color_texture.index == 0
    assert gltf.vrm.material_properties[0].texture_properties == {"_MainTex": 0}

    for image in gltf.images:
        assert avatar_doc.get_image_bytes(0).startswith(b"\x89PNG")
        assert image.buffer_view < len(gltf.buffer_views)
    for acc in gltf.accessors:
        assert acc.buffer_view < len(gltf.buffer_views)


def test_collect_garbage_is_idempotent(avatar_doc):
    collect_garbage(avatar_doc)
    first = avatar_doc.gltf.to_json()
    version = avatar_doc.version

    results = collect_garbage(avatar_doc)

    assert avatar_doc.gltf.to_json() == first
    assert avatar_doc.version == version
    assert all(r.details["removed"] == 0 for r in results)


def test_texture_remap_is_reported(avatar_doc):
    result = remove_unused_textures(avatar_doc)
    assert result.remap == {0: 0, 1: 1}


def test_images_wait_for_their_textures(avatar_doc):
    # Images are only released once the texture holding them is gone.
    assert remove_unused_images(avatar_doc).details["removed"] == 0
    delete_vrm_thumbnail(avatar_doc)
    assert remove_unused_images(avatar_doc).details["removed"] == 0
    assert remove_unused_textures(avatar_doc).details["removed"] == 2
    assert remove_unused_images(avatar_doc).details["removed"] == 2
    assert [image.name for image in avatar_doc.gltf.images] == ["albedo"]


def test_orphan_accessor_and_view(avatar_doc):
    orphan_view = avatar_doc.gltf.accessors[-1].buffer_view
    remove_unused_accessors(avatar_doc)
    result = remove_unused_buffer_views(avatar_doc)
    assert orphan_view not in result.remap
