from fastapi import status


def test_node_security_groups(client, network, instances):
    network.add_group("uk-1", "web")
    instances.add("uk-1", "server-1")

    response = client.get("/nodes/uk-1/server-1/security-groups")

    assert response.status_code == status.HTTP_200_OK
    payload = response.json()
    assert payload["count"] == 1
    assert payload["security_groups"][0]["name"] == "web"


def test_unknown_node_has_no_security_groups(client, network):
    network.add_group("uk-1", "web")

    response = client.get("/nodes/uk-1/server-missing/security-groups")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["count"] == 0


def test_node_in_unknown_region(client):
    response = client.get("/nodes/us-1/server-1/security-groups")
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_cleanup_node_removes_owned_group(client, network):
    vendor = network.add_group("uk-1", "web")

    response = client.post(
        "/nodes/uk-1/server-1/cleanup",
        json={"tags": ["other-tag", f"jclouds-sg-uk-1/{vendor.id}"]},
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"removed": True}
    assert network.list_groups("uk-1") == []


def test_cleanup_node_without_owned_group(client, network):
    network.add_group("uk-1", "web")

    response = client.post("/nodes/uk-1/server-1/cleanup", json={"tags": ["other-tag"]})

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"removed": False}
    assert len(network.list_groups("uk-1")) == 1


def test_cleanup_node_requires_write_scope(read_only_client):
    response = read_only_client.post("/nodes/uk-1/server-1/cleanup", json={"tags": []})
    assert response.status_code == status.HTTP_403_FORBIDDEN
