from brewmaestro.core import recipes


def test_recipes_page(client):
    resp = client.get("/recipes")
    assert resp.status_code == 200
    assert "recipes" in resp.text.lower()


def test_recipe_add(client):
    resp = client.post("/recipes/add", data={
        "name": "Recipe Test Red Ale",
        "style": "Irish Red",
        "boil_time": "75",
        "batch_size": "20",
    }, follow_redirects=False)
    assert resp.status_code == 303

    recipe = next(r for r in recipes.get_all() if r.name == "Recipe Test Red Ale")
    assert recipe.boil_time == 75
    assert recipe.batch_size == 20

    page = client.get("/recipes")
    assert "Recipe Test Red Ale" in page.text
