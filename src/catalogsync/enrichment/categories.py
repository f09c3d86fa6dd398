"""Fallback category vocabulary for stores without a configured list."""

DEFAULT_CATEGORIES = [
    "After Shave Lotions", "Anklets", "Backpacks", "Bags", "Bath Salts", "Beanies",
    "Beauty Tools", "Bikini Bottoms", "Bikini Tops", "Bikinis", "Blazers", "Blouses",
    "Blushers", "Bodies", "Body Oils", "Body Tapes", "Body Treatments", "Bracelets",
    "Bralets", "Bras", "Briefs", "Bum Bags", "Camis", "Candles", "Caps", "Cardigans",
    "Cleansers", "Co-ords", "Coats", "Colour Correctors", "Concealers", "Conditioners",
    "Corset Tops", "Corsets", "Cover Ups", "Crop Tops", "Dresses", "Dressing Gowns",
    "Dungarees", "Earrings", "Eye Creams", "Eye Masks", "Eye Primers", "Eye Serums",
    "Eye Shadow Palettes", "Eye Shadows", "Eyebrow Gels", "Face + Body Sets", "Face Masks",
    "Facial Exfoliators", "Facial Moisturisers", "Facial Oils", "Facial Serums", "False Nails",
    "Fleeces", "Gilets", "Gloves", "Hair Accessories", "Hair Bands", "Hair Brushes",
    "Hair Clips", "Hair Creams", "Hair Grips", "Hair Masks", "Hair Serums", "Hair Sets",
    "Hair Straighteners", "Hair Treatments", "Hairbands", "Harnesses", "Hats", "Headbands",
    "Highlighters", "Hoodies", "Jackets", "Jeans", "Jeggings", "Joggers", "Jumpers",
    "Jumpsuits", "Leggings", "Lingerie Bodies", "Lingerie Bralets", "Lingerie Sets",
    "Lip Balms", "Lip Liners", "Lipsticks", "Loungewear Sets", "Makeup Bags",
    "Makeup Brush Sets", "Makeup Brushes", "Makeup Sets", "Mascaras", "Micellar Water",
    "Nail Polishes", "Nail Treatments", "Necklaces", "Nighties", "Nightwear Sets",
    "Palettes", "Pencil Sharpeners", "Piercings", "Playsuits", "Polo Shirts", "Powders",
    "Primers", "Pyjama Bottoms", "Pyjama Tops", "Pyjamas", "Rings", "Robes", "Sandals",
    "Self Tan", "Setting Sprays", "Shampoos", "Shapewear", "Shirts", "Shoes", "Shorts",
    "Ski Pants", "Ski Suits", "Skincare Sets", "Skirts", "Sleep Aids", "Sleep Masks",
    "Slippers", "Slips", "Socks", "Sponges", "Sports Bras", "Sun Care", "Sunglasses",
    "Sunglasses Accessories", "Sweatshirts", "Swimsuits", "T-shirts", "Tank Tops",
    "Thongs", "Tights", "Toe Rings", "Trainers", "Trousers", "Tweezers", "Unitards",
    "Vests", "Wash Bags", "Watches", "Water Bottles", "Sets", "Gift Cards", "Fragrances",
    "Textile Fragrances",
]

FALLBACK_CATEGORY = "clothing"
